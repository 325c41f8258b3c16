# netrain_formula/formula_version.py
# Formula version constants. Single authoritative definition.
# Referenced by the install receipt writer, the harness run records,
# and the failure handler for version stamping.

FORMULA_VERSION: str = "0.2.0"

# Format version of INSTALL_RECEIPT.json and the harness PASS/FAIL records.
# A change to any record layout requires an increment.
RECORD_FORMAT_VERSION: str = "1.0.0"
