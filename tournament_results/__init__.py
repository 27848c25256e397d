"""
Tournament results backend: automatic status transitions, the cancellation
cascade at tournament start, final standings, ranking points and seasonal
player rankings.
"""
__version__ = "0.1.0"
