"""
Trading engine: trade execution and protective order placement.
"""
