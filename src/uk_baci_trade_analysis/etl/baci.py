from pathlib import Path
from typing import List, Tuple

import polars as pl
from tqdm.auto import tqdm

from uk_baci_trade_analysis.utils.logging_config import get_logger

logger = get_logger(__name__)

# --- Default locations & file conventions ---
DEFAULT_BACI_DIR = Path("data/raw/BACI_HS92_V202501")
TRADE_FILE_PATTERN = "BACI*.csv"
COUNTRY_CODES_PATTERN = "country_codes*.csv"
PRODUCT_CODES_PATTERN = "product_codes*.csv"

# One BACI file per year; the deck covers the first 29 releases (1995-2023)
MAX_TRADE_FILES = 29

# Raw BACI columns: t=year, i=exporter, j=importer, k=HS6 product, v=value (000 USD), q=quantity (tons)
BACI_COLUMNS = ["t", "i", "j", "k", "v", "q"]
BACI_SCHEMA_OVERRIDES = {
    "t": pl.Int64,
    "i": pl.Int64,
    "j": pl.Int64,
    "k": pl.Utf8,
    "v": pl.Float64,
    # Quantity is padded with spaces and "NA" in the raw files, cleaned below
    "q": pl.Utf8,
}


def find_trade_files(
    input_dir: str | Path,
    pattern: str = TRADE_FILE_PATTERN,
    max_files: int | None = MAX_TRADE_FILES,
) -> List[Path]:
    """Returns the sorted trade files matching `pattern`, truncated to `max_files`."""
    input_dir = Path(input_dir)
    csv_files = sorted(input_dir.glob(pattern))

    logger.info(f"Found {len(csv_files)} files matching '{pattern}' in {input_dir}")

    if not csv_files:
        logger.error(f"No trade files found matching pattern: {input_dir / pattern}")
        raise FileNotFoundError(f"No CSV files found matching pattern: {input_dir / pattern}")

    if max_files is not None:
        if max_files < 1:
            raise ValueError(f"max_files must be positive, got {max_files}")
        if len(csv_files) > max_files:
            logger.info(f"Keeping the first {max_files} of {len(csv_files)} trade files")
        csv_files = csv_files[:max_files]

    return csv_files


def scan_baci_csv_files(
    input_dir: str | Path,
    pattern: str = TRADE_FILE_PATTERN,
    max_files: int | None = MAX_TRADE_FILES,
) -> pl.LazyFrame:
    """
    Lazily scans the BACI trade CSVs into a single LazyFrame.

    Args:
        input_dir: Directory holding the BACI_HSxx_Vyyyy CSV files.
        pattern: Glob pattern for the yearly trade files.
        max_files: Number of files (in sorted order) to consume. None reads all.

    Returns:
        A LazyFrame with the raw BACI columns t, i, j, k, v, q. Quantity is
        cast to Float64 with "NA" markers turned into nulls.
    """
    csv_files = find_trade_files(input_dir, pattern=pattern, max_files=max_files)

    lfs = []
    for csv_file in tqdm(csv_files, desc="Scanning BACI files"):
        logger.debug(f"Scanning {csv_file.name}")
        lfs.append(
            pl.scan_csv(csv_file, schema_overrides=BACI_SCHEMA_OVERRIDES).select(BACI_COLUMNS)
        )

    raw_lf = pl.concat(lfs, how="vertical").with_columns(
        pl.col("q").str.strip_chars().cast(pl.Float64, strict=False)
    )

    logger.info(f"Successfully scanned {len(csv_files)} CSV files into a Polars LazyFrame.")
    return raw_lf


def _find_reference_file(input_dir: str | Path, pattern: str) -> Path:
    matches = sorted(Path(input_dir).glob(pattern))
    if not matches:
        logger.error(f"Reference file matching '{pattern}' not found in {input_dir}")
        raise FileNotFoundError(f"No reference file matching {Path(input_dir) / pattern}")
    if len(matches) > 1:
        logger.warning(f"Several files match '{pattern}', using {matches[0].name}")
    return matches[0]


def load_country_codes(file_path: str | Path) -> pl.DataFrame:
    """Loads the BACI country table as (country_code, country_name), codes zero-padded to 3."""
    file_path = Path(file_path)
    logger.info(f"Loading country codes from: {file_path}")

    # Read everything as strings to keep leading zeros intact
    df = pl.read_csv(file_path, infer_schema=False)
    missing = {"country_code", "country_name"} - set(df.columns)
    if missing:
        logger.error(f"Country code table {file_path} is missing columns {sorted(missing)}")
        raise ValueError(f"Country code table is missing columns: {sorted(missing)}")

    country_df = (
        df.select(
            pl.col("country_code").str.strip_chars().str.zfill(3),
            pl.col("country_name").str.strip_chars(),
        )
        .drop_nulls()
        .unique(subset="country_code", keep="first", maintain_order=True)
    )

    logger.info(f"Loaded {country_df.height} country codes")
    return country_df


def load_product_codes(file_path: str | Path) -> pl.DataFrame:
    """Loads the BACI product table as (product_code, description), codes zero-padded to 6."""
    file_path = Path(file_path)
    logger.info(f"Loading product codes from: {file_path}")

    df = pl.read_csv(file_path, infer_schema=False, encoding="utf8-lossy")
    missing = {"code", "description"} - set(df.columns)
    if missing:
        logger.error(f"Product code table {file_path} is missing columns {sorted(missing)}")
        raise ValueError(f"Product code table is missing columns: {sorted(missing)}")

    product_df = (
        df.select(
            pl.col("code").str.strip_chars().str.zfill(6).alias("product_code"),
            pl.col("description"),
        )
        .drop_nulls("product_code")
        .unique(subset="product_code", keep="first", maintain_order=True)
    )

    logger.info(f"Loaded {product_df.height} product codes")
    return product_df


def load_baci(
    input_dir: str | Path = DEFAULT_BACI_DIR,
    max_files: int | None = MAX_TRADE_FILES,
) -> Tuple[pl.LazyFrame, pl.DataFrame, pl.DataFrame]:
    """
    Loads everything the normaliser needs from one BACI release directory.

    Returns:
        (raw trade LazyFrame, country code table, product code table)
    """
    logger.info(f"Loading BACI release from {input_dir}")

    raw_lf = scan_baci_csv_files(input_dir, max_files=max_files)
    country_df = load_country_codes(_find_reference_file(input_dir, COUNTRY_CODES_PATTERN))
    product_df = load_product_codes(_find_reference_file(input_dir, PRODUCT_CODES_PATTERN))

    return raw_lf, country_df, product_df
