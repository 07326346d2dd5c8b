"""External service clients"""
