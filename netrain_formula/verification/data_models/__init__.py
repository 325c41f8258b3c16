# netrain_formula/verification/data_models/__init__.py
