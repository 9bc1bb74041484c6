COLUMN = 0b01  # chain stands for a column vector
ROW = 0b10  # chain stands for a row vector
ORIENTATIONS = (COLUMN, ROW)

DEFAULT_CHAIN_COUNT = 16

# per-chain state bits held in SparseMatrix.chains_state
STATE_POPULATED = 0b001  # chain currently holds at least one entry
STATE_WRITTEN = 0b010  # chain has held an entry since the slot was created
STATE_CLEARED = 0b100  # chain was explicitly nullified and not written since


class CooColumn:
    ROW = "row"
    COL = "col"
    VALUE = "value"


def orientation_name(orientation: int) -> str:
    return {COLUMN: "COLUMN", ROW: "ROW"}.get(orientation, str(orientation))
