"""
chat — Client side of the external chat service (emergency channels only).
"""
