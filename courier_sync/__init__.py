"""
Courier Sync - fleet data collection and idle-courier hotspot assignment
"""
