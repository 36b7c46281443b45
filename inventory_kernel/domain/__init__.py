"""Pure domain values: movement variants, status tables, costing, clocks."""
