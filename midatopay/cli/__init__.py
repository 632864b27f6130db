"""
MidatoPay command line tools
"""
