"""FindBack libraries"""
