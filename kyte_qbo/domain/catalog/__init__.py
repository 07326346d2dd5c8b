"""Catalog domain - Product snapshot and lookups"""
