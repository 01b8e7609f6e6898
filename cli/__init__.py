"""FindBack command line interface"""
