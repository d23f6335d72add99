"""
Warehouse fill planner configuration.

Forecast defaults, calibration fallbacks, file column aliases and
category rules shared by the calculator and the forecast.
"""

# ===========================
# WAREHOUSE DEFAULTS
# ===========================

# Used until the calculator has published a snapshot
DEFAULT_CAPACITY_M3 = 422.784
DEFAULT_CAPACITY_CELLS = 1064
DEFAULT_START_STOCK_M3 = 127.6

# Cell roles, in the order volume is allocated into them
ROLE_ORDER = ["pick", "overstock", "attic"]
OVERFLOW_ROLE = "overflow"

UNCATEGORIZED = "Uncategorized"

# Volumes below this are treated as zero when allocating and filtering
ALLOCATION_TOLERANCE = 1e-9

# ===========================
# FORECAST PARAMETERS
# ===========================

DEFAULT_HORIZON_MONTHS = 24
MIN_HORIZON_MONTHS = 6
MAX_HORIZON_MONTHS = 36

DEFAULT_PROTECT_MONTHS = 3
MAX_PROTECT_MONTHS = 12

DEFAULT_GROWTH_YOY = 0.15
MIN_GROWTH_YOY = -0.5
MAX_GROWTH_YOY = 1.0

DEFAULT_SELL_THRU = 0.08
MIN_SELL_THRU = 0.01          # UI slider bounds only, engine accepts 0..1
MAX_SELL_THRU = 0.40

DEFAULT_COEF_SS = 1.10        # Apr-Sep
DEFAULT_COEF_FW = 0.95        # Oct-Mar

DEFAULT_AVG_NEW_SKU_M3 = 0.065
MIN_AVG_NEW_SKU_M3 = 0.001

DEFAULT_CELL_TURNOVER_EFFICIENCY = 0.05

DEFAULT_USE_CALIBRATION = True
DEFAULT_BLEND_WEIGHT = 0.7

# Division guard for capacity and average SKU volume
EPSILON = 0.0001

# Spring/summer = calendar months 4..9 (0-based 3..8)
SS_MONTHS = range(4, 10)
SS_MONTH_INDEXES = range(3, 9)

FILL_THRESHOLDS = (80, 100)

# Marker shown instead of a month when the simulation fails
ERROR_MARKER = "Error"

MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
                "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

# ===========================
# HISTORICAL CALIBRATION
# ===========================

DEFAULT_HIST_SELL_THRU = 0.08
DEFAULT_HIST_COEF_SS = 1.10
DEFAULT_HIST_COEF_FW = 1.0
DEFAULT_HIST_SHARE_NEW = 0.25
DEFAULT_HIST_GROWTH_YOY = 0.0

# Used when the history cannot support an estimate
FALLBACK_SELL_THRU = 0.08
FALLBACK_SHARE_NEW = 0.25
FALLBACK_SEASON_COEF = 1.0

SALES_DATE_SEPARATOR = "."

# ===========================
# SUPPLY WAVES
# ===========================

SEASONS = ["SS", "FW", "ALL"]

# How co-scheduled waves combine their new-SKU share
SHARE_POLICY_VOLUME_WEIGHTED = "volume_weighted"
SHARE_POLICY_SIMPLE_MEAN = "simple_mean"
DEFAULT_SHARE_POLICY = SHARE_POLICY_VOLUME_WEIGHTED

# Seed waves: year offsets are relative to the forecast base year
DEFAULT_WAVES = [
    {"label": "FW25", "season": "FW", "year_offset": 0, "month_index": 8,
     "base_volume": 80.0, "new_sku_share": 0.30},
    {"label": "SS26", "season": "SS", "year_offset": 1, "month_index": 2,
     "base_volume": 70.0, "new_sku_share": 0.25},
]

NEW_WAVE_DEFAULTS = {
    "label": "NEW",
    "season": "FW",
    "base_volume": 50.0,
    "new_sku_share": 0.25,
}

WAVE_LABEL_SEPARATOR = " + "

# ===========================
# SNAPSHOT BRIDGE
# ===========================

SNAPSHOT_KEY = "ws_calc_snapshot"
SNAPSHOT_SCHEMA_VERSION = 1
SNAPSHOT_DECIMALS = 6
SNAPSHOT_DB_PATH = ".tmp/snapshot_store.db"

# ===========================
# EXPORT
# ===========================

EXPORT_VOLUME_DECIMALS = 3
EXPORT_PCT_DECIMALS = 2

FORECAST_EXPORT_COLUMNS = [
    "ym", "month", "labels", "arrivals", "sales", "stockEnd",
    "newSkus", "closedSkus", "activeSkusEnd", "pctM3", "pctCells",
]

# ===========================
# DATA REQUIREMENTS
# ===========================

# Default tables for the calculator, loaded from this directory if present
DEFAULT_DATA_DIR = "data"
DEFAULT_DATA_FILES = {
    "reference": "reference_min.json",
    "capacity_by_category": "capacity_by_category.json",
    "capacity_by_category_role": "capacity_by_category_role.json",
    "cell_map": "addr_cells_map.json",
}

INVENTORY_COLUMN_ALIASES = {
    "sku": ["sku", "код товара (sku)", "код товара", "артикул"],
    "qty_pcs": [
        "qty_pcs", "доступно", "qty", "кол-во", "количество", "остаток",
        "остаток, шт", "available",
    ],
}

REFERENCE_COLUMN_ALIASES = {
    "sku": ["sku", "код товара (sku)", "код товара", "код", "артикул"],
    "pcs_per_mc": ["pcs_per_mc", "pcs per mc", "шт в коробе"],
    "pcs_cbm": ["pcs_cbm", "pcs volume, cbm", "pcs cbm, м3", "pcs cbm"],
    "mc_cbm": ["mc_cbm", "mc volume, cbm", "mc cbm"],
    "category": ["category", "категория", "level 3", "level3"],
}

CAPACITY_COLUMN_ALIASES = {
    "category": ["category", "категория"],
    "role": ["role", "роль"],
    "capacity_cbm": ["capacity_cbm", "capacity", "вместимость", "вместимость, м3"],
}

CELL_MAP_COLUMN_ALIASES = {
    "role": ["role", "роль"],
    "cell_id": ["cellid", "cell_id", "cell", "ячейка", "адрес"],
    "cell_volume_m3": ["cellvolume_m3", "cell_volume_m3", "cell volume", "объем ячейки"],
    "category": ["category", "категория"],
}

SALES_COLUMN_ALIASES = {
    "date": ["дата", "date", "sale date"],
    "sku": ["код", "sku", "код товара", "артикул"],
    "qty": ["кол-во", "qty", "quantity", "количество"],
}

MOVEMENTS_COLUMN_ALIASES = {
    "sku": ["код", "sku", "код товара", "артикул"],
    "opening_qty": ["на открытие", "opening", "opening qty", "opening_qty"],
    "inbound_qty": ["приход", "inbound", "inbound qty", "inbound_qty", "receipts"],
}

VOLUME_COLUMN_ALIASES = {
    "sku": ["sku", "код", "код товара", "код товара (sku)", "артикул"],
    "unit_volume": ["pcs volume, cbm", "pcs cbm", "pcs_cbm", "pcs cbm, м3", "unit_volume"],
}

# CSV separators, in tie-break order
CSV_DELIMITERS = [";", "\t", ","]

# Keywords used to pick the sheet of a multi-sheet workbook
SHEET_KEYWORDS = [
    "sku", "код", "артикул", "qty", "кол-во", "остаток", "cbm", "дата",
    "приход", "на открытие", "category", "категория", "capacity", "role",
]

# ===========================
# CATEGORY RULES
# ===========================

# Evaluated in order against the lower-cased category; first match wins
CATEGORY_RULES = [
    (r"термоноск", "Носки"),
    (r"джог+ер|джогер", "Брюки"),
    (r"вейдерс", "Вейдерсы"),
    (r"ботин|сапог|полусапог|кроссовк|забродн.*обув|обувь", "Обувь"),
    (r"термокуртк|куртк|жилетк|плащ", "Куртки"),
    (r"кофт|худ[иы]", "Кофты"),
    (r"комбез|комбинез", "Костюмы"),
    (r"брюк|термобрюк", "Брюки"),
    (r"лонгслив|джерс|футболк|рубаш", "Футболки и рубашки"),
    (r"шапк|балаклав|баф|маск|кепк", "Головные уборы"),
    (r"перчат|вареж", "Перчатки"),
    (r"сумк|чехл|рюкзак|пояс|оборудован", "Сумки и чехлы"),
    (r"термобель", "Термоодежда"),
]
