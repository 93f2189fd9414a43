"""
Session models, lap validation and lap bookkeeping
"""
