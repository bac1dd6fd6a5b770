"""
GoCart API gateway service
"""
