"""
Version 1 of the Repair24 API.
"""
