"""Model vendors: one adapter per backend dialect, all behind ModelVendor."""
