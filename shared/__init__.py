"""
Shared packages for GoCart services
"""
