"""Database access: dialect probing, schema, upsert and queries"""
