"""
Queue backend adapters.
"""
