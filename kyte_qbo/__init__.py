"""Kyte POS orders to QuickBooks Online estimates"""
