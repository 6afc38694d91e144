"""
Listing matching: search queries, relevance scores and condition segments
"""
