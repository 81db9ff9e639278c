"""
JSON and CSV output for quote runs
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from .config import CSV_FILENAME, JSON_FILENAME
from .error_handler import ErrorHandler
from .models import is_error_record

log = logging.getLogger(__name__)


class DataHandler:
    def __init__(
        self,
        output_folder: str,
        json_filename: str = JSON_FILENAME,
        csv_filename: str = CSV_FILENAME,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.output_folder = Path(output_folder)
        self.json_path = self.output_folder / json_filename
        self.csv_path = self.output_folder / csv_filename
        self.error_handler = error_handler or ErrorHandler(str(self.output_folder), screenshots=False)
        self.output_folder.mkdir(parents=True, exist_ok=True)

    def build_entry(self, variant: str, request: Dict[str, Any], quotes: List[Dict[str, Any]]) -> Dict[str, Any]:
        """One saved run: the request, its quotes and when it happened"""
        return {
            'timestamp': datetime.now().isoformat(),
            'variant': variant,
            'request': request,
            'quotes': quotes,
            'failed': any(is_error_record(quote) for quote in quotes),
        }

    def _load_entries(self) -> List[Dict[str, Any]]:
        if not self.json_path.exists():
            return []
        try:
            with open(self.json_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            backup_path = self.json_path.with_suffix('.json.backup')
            self.json_path.replace(backup_path)
            self.error_handler.log_error(
                "JSON_CORRUPTION",
                f"Corrupted JSON file backed up to {backup_path}. Starting fresh.",
                e,
            )
            return []

        if not isinstance(data, list):
            data = [data] if data else []
        return data

    def save_to_json(self, entry: Dict[str, Any]) -> bool:
        """Append one entry; written to a temp file and renamed into place"""
        if not isinstance(entry, dict):
            self.error_handler.log_error("DATA_VALIDATION", f"Entry must be a dictionary, got {type(entry)}")
            return False

        temp_path = self.json_path.with_suffix('.json.tmp')
        try:
            entries = self._load_entries()
            entries.append(entry)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(entries, f, indent=4, ensure_ascii=False)
            temp_path.replace(self.json_path)
        except OSError as e:
            self.error_handler.log_error("FILE_WRITE", f"Failed to save JSON to {self.json_path}: {e}", e)
            if temp_path.exists():
                temp_path.unlink()
            return False

        log.info(f"Quotes saved to JSON: {self.json_path}")
        return True

    def to_frame(self, entries: List[Dict[str, Any]]) -> pd.DataFrame:
        """Flatten saved runs into one row per quote (ancillary fields as columns)"""
        rows = []
        for entry in entries:
            request = entry.get('request') or {}
            for quote in entry.get('quotes') or []:
                rows.append({
                    'timestamp': entry.get('timestamp', ''),
                    'variant': entry.get('variant', ''),
                    'state': request.get('state'),
                    'coverage_requested': request.get('coverageType'),
                    **quote,
                })

        if not rows:
            return pd.DataFrame()
        return pd.json_normalize(rows, sep='_')

    def save_to_csv(self) -> Optional[pd.DataFrame]:
        """Rebuild the CSV from everything in the JSON file"""
        entries = self._load_entries()
        df = self.to_frame(entries)
        if df.empty:
            log.warning("No quotes to write to CSV")
            return None

        temp_path = self.csv_path.with_suffix('.csv.tmp')
        try:
            df.to_csv(temp_path, index=False, encoding='utf-8')
            temp_path.replace(self.csv_path)
        except OSError as e:
            self.error_handler.log_error("FILE_WRITE", f"Failed to save CSV to {self.csv_path}: {e}", e)
            if temp_path.exists():
                temp_path.unlink()
            return None

        log.info(f"Quotes saved to CSV: {self.csv_path} ({len(df)} rows)")
        return df

    def summary(self, df: pd.DataFrame) -> Dict[str, Any]:
        """Counts and premium range across successful quotes"""
        if df is None or df.empty:
            return {'records': 0}

        ok = df[df['error'] != True] if 'error' in df.columns else df  # noqa: E712
        result = {
            'records': len(df),
            'quotes': len(ok),
            'errors': len(df) - len(ok),
        }
        if 'provider' in ok.columns and not ok.empty:
            result['providers'] = sorted(ok['provider'].dropna().unique().tolist())
        if 'monthlyPremium' in ok.columns:
            premiums = pd.to_numeric(ok['monthlyPremium'], errors='coerce').dropna()
            if not premiums.empty:
                result['minMonthlyPremium'] = float(premiums.min())
                result['maxMonthlyPremium'] = float(premiums.max())
        return result
