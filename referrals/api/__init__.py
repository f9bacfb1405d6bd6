"""
referrals/api package marker.
"""
