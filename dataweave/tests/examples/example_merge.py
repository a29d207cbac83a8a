from dataweave import TableState

from dataweave.tests import DATA_DIR

state = TableState()
state.load_file(DATA_DIR / "sales.csv")
state.add_file_from(DATA_DIR / "regions.csv")

print("shared columns:", state.common_columns("sales.csv", "regions.csv"))
state.merge_files("sales.csv", "regions.csv", "region", "left")
print(state.table.look())
print(state.top_correlations(3))
