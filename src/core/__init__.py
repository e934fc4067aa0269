"""Core domain package for storewatch.

Core contains change detection, subscription matching, and fan-out logic
without any HTTP, Telegram or storage-specific code, keeping the business
logic portable.
"""
