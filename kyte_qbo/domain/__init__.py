"""Domain packages: catalog, orders, customers, webhooks"""
