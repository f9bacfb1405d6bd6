"""
Referral insights service package.
"""
