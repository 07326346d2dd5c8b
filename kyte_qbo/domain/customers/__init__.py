"""Customers domain - Local mirror of QuickBooks customers"""
