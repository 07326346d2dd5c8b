"""Shared helpers"""
