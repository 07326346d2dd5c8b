"""Webhooks domain - QuickBooks change notifications"""
