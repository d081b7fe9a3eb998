import pandas as pd
import io
import math
import re
from typing import List, Dict, Any, Optional, Tuple
from fastapi import UploadFile
from difflib import SequenceMatcher
from app.schemas.survey import ColumnMetadata
from app.core.exceptions import EmptySurveyError
from app.core.logging_config import logger


class SurveyUploadService:
    """Service for parsing survey files and mapping their columns onto row fields"""

    # Standard row fields
    # Maps field identifier to user-friendly description
    ROW_FIELDS = {
        "specialty": "Specialty",
        "region": "Geographic Region",
        "provider_type": "Provider Type",
        "variable": "Variable",
        "p25": "25th Percentile",
        "p50": "50th Percentile (Median)",
        "p75": "75th Percentile",
        "p90": "90th Percentile",
        "n_orgs": "Number of Organizations",
        "n_incumbents": "Number of Incumbents",
    }

    NUMERIC_FIELDS = {"p25", "p50", "p75", "p90"}
    COUNT_FIELDS = {"n_orgs", "n_incumbents"}

    # Column patterns for auto-mapping
    # Maps row field to possible CSV header names
    AUTO_MAPPING_PATTERNS = {
        "specialty": ["specialty", "specialty name", "provider specialty"],
        "region": ["region", "geographic region", "geo region", "geographicregion"],
        "provider_type": ["provider type", "providertype", "provider category"],
        "variable": ["variable", "variable name", "metric", "measure"],
        "p25": ["p25", "25th", "25th percentile", "percentile 25"],
        "p50": ["p50", "50th", "median", "50th percentile", "percentile 50"],
        "p75": ["p75", "75th", "75th percentile", "percentile 75"],
        "p90": ["p90", "90th", "90th percentile", "percentile 90"],
        "n_orgs": ["n_orgs", "n orgs", "number of organizations", "# orgs", "org count"],
        "n_incumbents": ["n_incumbents", "n incumbents", "number of incumbents", "# incumbents", "incumbent count"],
    }

    MATCH_THRESHOLD = 0.7

    async def parse_file(self, file: UploadFile) -> Tuple[pd.DataFrame, int]:
        """
        Parse uploaded CSV or Excel file into a pandas DataFrame of strings.

        Rows whose field count does not match the header are dropped.

        Returns:
            (DataFrame, number of skipped rows)
        """
        content = await file.read()

        filename = (file.filename or "").lower()
        if not filename:
            raise ValueError("No filename provided")

        try:
            if filename.endswith('.csv'):
                df, skipped = self.parse_csv(content)
            elif filename.endswith(('.xlsx', '.xls')):
                df = pd.read_excel(io.BytesIO(content), dtype=str, keep_default_na=False)
                skipped = 0
            else:
                raise ValueError(f"Unsupported file format: {filename}")
        except ValueError:
            raise
        except Exception as e:
            logger.error(f"Error parsing file '{file.filename}': {str(e)}")
            raise ValueError(f"Failed to parse file: {str(e)}")

        logger.info(f"Parsed file '{file.filename}': {len(df)} rows, {len(df.columns)} columns, {skipped} skipped")
        return df, skipped

    def parse_csv(self, content: bytes) -> Tuple[pd.DataFrame, int]:
        """Parse CSV bytes; header line first, malformed rows skipped silently."""
        bad_lines: List[List[str]] = []

        def _skip(bad_line: List[str]) -> None:
            bad_lines.append(bad_line)
            return None

        df = pd.read_csv(
            io.BytesIO(content),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            on_bad_lines=_skip,
            engine="python",
            encoding="utf-8-sig",
        )
        df.columns = [str(col).strip() for col in df.columns]

        # Short rows are padded with NaN; with keep_default_na=False only those are NaN
        short_rows = df.isna().any(axis=1)
        if short_rows.any():
            df = df[~short_rows].reset_index(drop=True)

        return df, len(bad_lines) + int(short_rows.sum())

    def detect_columns(
        self,
        df: pd.DataFrame,
        saved_mapping: Optional[Dict[str, str]] = None
    ) -> List[ColumnMetadata]:
        """
        Return every row field with its detected CSV header

        Args:
            df: DataFrame with uploaded data
            saved_mapping: Remembered mapping {row_field: csv_header}

        Returns:
            List of ColumnMetadata - one for each row field
        """
        columns_metadata = []
        csv_columns = list(df.columns)
        used_columns = set()

        # PASS 1: Apply saved mappings first
        saved_mappings_applied = {}
        if saved_mapping:
            lowered = {col.lower(): col for col in csv_columns}
            for field, header in saved_mapping.items():
                if field not in self.ROW_FIELDS or not header:
                    continue
                match = lowered.get(header.lower())
                if match and match not in used_columns:
                    saved_mappings_applied[field] = match
                    used_columns.add(match)
                    logger.info(f"Applied saved mapping: '{field}' -> CSV:'{match}'")

        # PASS 2: Auto-detect for remaining fields
        potential_matches = []  # (field, csv_col, score)

        for field, patterns in self.AUTO_MAPPING_PATTERNS.items():
            if field in saved_mappings_applied:
                continue

            for csv_col in csv_columns:
                if csv_col in used_columns:
                    continue

                col_lower = csv_col.lower().strip()
                best_pattern_score = 0.0

                for pattern in patterns:
                    score = SequenceMatcher(None, col_lower, pattern).ratio()

                    # Boost score if pattern is contained in the header or vice versa
                    if pattern in col_lower or col_lower in pattern:
                        score = max(score, 0.85)

                    best_pattern_score = max(best_pattern_score, score)

                if best_pattern_score >= self.MATCH_THRESHOLD:
                    potential_matches.append((field, csv_col, best_pattern_score))

        # Sort by score (highest first) and greedily assign
        potential_matches.sort(key=lambda x: x[2], reverse=True)
        auto_detected_mappings = {}

        for field, csv_col, score in potential_matches:
            if field not in auto_detected_mappings and csv_col not in used_columns:
                auto_detected_mappings[field] = csv_col
                used_columns.add(csv_col)
                logger.info(f"Auto-detected: field '{field}' -> CSV column '{csv_col}' (score: {score:.2f})")

        # PASS 3: Build final metadata for all row fields
        for idx, (field, description) in enumerate(self.ROW_FIELDS.items()):
            mapped_column = saved_mappings_applied.get(field) or auto_detected_mappings.get(field)
            sample_value = ""

            if mapped_column:
                for val in df[mapped_column]:
                    if pd.notna(val) and str(val).strip():
                        sample_value = str(val)[:50]
                        break

            columns_metadata.append(ColumnMetadata(
                description=description,
                identifier=field,
                index=idx,
                mapping=mapped_column,
                sample_value=sample_value
            ))

        return columns_metadata

    def map_rows(
        self,
        df: pd.DataFrame,
        column_mapping: Dict[str, str]
    ) -> List[Dict[str, Any]]:
        """
        Convert raw records into survey row values

        Args:
            df: DataFrame with raw data
            column_mapping: {row_field: csv_header}

        Returns:
            List of row dicts: denormalized fields plus the raw record under "data"
        """
        mapped_rows = []

        for record in df.to_dict("records"):
            raw = {str(key): ("" if pd.isna(value) else str(value).strip()) for key, value in record.items()}
            row: Dict[str, Any] = {"data": raw}

            for field, header in column_mapping.items():
                if not header or header not in raw:
                    continue
                value = raw[header]
                if field in self.NUMERIC_FIELDS:
                    row[field] = self.parse_number(value)
                elif field in self.COUNT_FIELDS:
                    number = self.parse_number(value)
                    row[field] = int(number) if number is not None else None
                else:
                    row[field] = value or None

            mapped_rows.append(row)

        return mapped_rows

    @staticmethod
    def parse_number(value: Any) -> Optional[float]:
        """Parse "$1,234.50" style survey figures; blanks, markers like "*" and non-finite values give None"""
        if value is None:
            return None
        text = re.sub(r"[$,%\s]", "", str(value))
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None

    def build_rows(
        self,
        df: pd.DataFrame,
        saved_mapping: Optional[Dict[str, str]] = None
    ) -> Tuple[List[ColumnMetadata], List[Dict[str, Any]]]:
        """
        Detect columns and map every record.

        Raises:
            EmptySurveyError: If the file has no valid data rows
        """
        if df.empty:
            raise EmptySurveyError("The uploaded file contains no valid data rows")

        columns = self.detect_columns(df, saved_mapping=saved_mapping)
        column_mapping = {col.identifier: col.mapping for col in columns if col.mapping}
        rows = self.map_rows(df, column_mapping)

        if not rows:
            raise EmptySurveyError("The uploaded file contains no valid data rows")
        return columns, rows


survey_upload_service = SurveyUploadService()
