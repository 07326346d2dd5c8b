"""Orders domain - Kyte intake, matching, estimates and conversion history"""
