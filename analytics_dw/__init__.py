"""
Analytics Data Warehouse

Star-schema warehouse with SCD Type 2 customers, incremental sales loads,
daily rollups and run logging.
"""

__version__ = "1.0.0"
