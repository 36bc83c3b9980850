"""Core domain package for fiserelay.

Core contains message parsing, deduplication, and the coupon protocol state
machine without any SMS gateway, HTTP, or storage-specific code, keeping the
business logic portable.
"""
