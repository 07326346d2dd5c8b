"""Cross-domain routes"""
