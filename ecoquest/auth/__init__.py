"""Identity provider boundary"""
