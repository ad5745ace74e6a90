"""
Data manager for loading and validating the country catalog.
"""
import json
import os
import logging
from typing import Dict, List, Optional, Tuple
from pathlib import Path

from .models import Country, MAX_OPTIONS_COUNT


# Used when no usable catalog file is available
BUILTIN_COUNTRIES: Tuple[Country, ...] = (
    Country("Sweden", "🇸🇪"),
    Country("Norway", "🇳🇴"),
    Country("Denmark", "🇩🇰"),
    Country("Finland", "🇫🇮"),
    Country("Iceland", "🇮🇸"),
    Country("Germany", "🇩🇪"),
    Country("France", "🇫🇷"),
    Country("Italy", "🇮🇹"),
    Country("Spain", "🇪🇸"),
    Country("Portugal", "🇵🇹"),
    Country("United Kingdom", "🇬🇧"),
    Country("Ireland", "🇮🇪"),
    Country("Netherlands", "🇳🇱"),
    Country("Belgium", "🇧🇪"),
    Country("Switzerland", "🇨🇭"),
    Country("Austria", "🇦🇹"),
    Country("Poland", "🇵🇱"),
    Country("Greece", "🇬🇷"),
    Country("Ukraine", "🇺🇦"),
    Country("Turkey", "🇹🇷"),
    Country("United States", "🇺🇸"),
    Country("Canada", "🇨🇦"),
    Country("Mexico", "🇲🇽"),
    Country("Brazil", "🇧🇷"),
    Country("Argentina", "🇦🇷"),
    Country("Chile", "🇨🇱"),
    Country("Japan", "🇯🇵"),
    Country("China", "🇨🇳"),
    Country("South Korea", "🇰🇷"),
    Country("India", "🇮🇳"),
    Country("Thailand", "🇹🇭"),
    Country("Vietnam", "🇻🇳"),
    Country("Australia", "🇦🇺"),
    Country("New Zealand", "🇳🇿"),
    Country("Egypt", "🇪🇬"),
    Country("South Africa", "🇿🇦"),
    Country("Nigeria", "🇳🇬"),
    Country("Kenya", "🇰🇪"),
    Country("Morocco", "🇲🇦"),
    Country("Jamaica", "🇯🇲"),
)


class DataManager:
    """Manages loading and validation of the country catalog JSON file."""

    MAX_FILE_SIZE = 1024 * 1024  # 1MB

    def __init__(self, catalog_path: str = "./countries.json"):
        """
        Initialize DataManager with the catalog file path.

        Args:
            catalog_path: Path to the JSON country catalog
        """
        self.catalog_path = Path(catalog_path)
        self.countries: List[Country] = []
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.fallback_catalog_active = False

    def load_catalog(self) -> List[Country]:
        """
        Load the country catalog, falling back to the built-in list on any error.

        Returns:
            The loaded countries
        """
        self.countries = []
        self.load_errors.clear()
        self.fallback_catalog_active = False

        load_result = self._load_catalog_file_safely(self.catalog_path)
        if not load_result['success']:
            self.load_errors.append(f"{self.catalog_path.name}: {load_result['error']}")
            return self._use_builtin_catalog()

        self.countries = load_result['countries']
        self.logger.info(f"Loaded {len(self.countries)} countries from {self.catalog_path}")
        return self.get_catalog()

    def _load_single_file(self, file_path: Path) -> Optional[dict]:
        """
        Load and parse a single JSON file.

        Args:
            file_path: Path to the JSON file

        Returns:
            Parsed JSON data or None if loading or validation failed
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
                if self.validate_catalog_structure(data):
                    return data
                else:
                    self.logger.error(f"Invalid catalog structure in {file_path}")
                    return None
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {file_path}: {e}")
            return None
        except FileNotFoundError:
            self.logger.error(f"Catalog file not found: {file_path}")
            return None
        except OSError as e:
            self.logger.error(f"Failed to read catalog file {file_path}: {e}")
            return None

    def validate_catalog_structure(self, data: dict) -> bool:
        """
        Validate that JSON data has the correct catalog structure.

        Expected structure:
        {
            "countries": [
                {"name": str, "flag": str}
            ]
        }

        Names must be non-empty and unique, and there must be enough countries
        for the hardest difficulty.

        Args:
            data: Parsed JSON data to validate

        Returns:
            True if structure is valid, False otherwise
        """
        if not isinstance(data, dict):
            self.logger.error("Catalog data must be a JSON object")
            return False

        if "countries" not in data:
            self.logger.error("Catalog data must contain a 'countries' key")
            return False

        entries = data["countries"]
        if not isinstance(entries, list):
            self.logger.error("'countries' value must be an array")
            return False

        if len(entries) < MAX_OPTIONS_COUNT:
            self.logger.error(
                f"Catalog must contain at least {MAX_OPTIONS_COUNT} countries, found {len(entries)}"
            )
            return False

        seen_names = set()
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                self.logger.error(f"Country {i} must be an object")
                return False

            for key in ("name", "flag"):
                if key not in entry:
                    self.logger.error(f"Country {i} missing '{key}' field")
                    return False
                if not isinstance(entry[key], str) or not entry[key].strip():
                    self.logger.error(f"Country {i} '{key}' field must be a non-empty string")
                    return False

            # Names are stored stripped, so compare them that way
            name = entry["name"].strip()
            if name in seen_names:
                self.logger.error(f"Duplicate country name: {name}")
                return False
            seen_names.add(name)

        return True

    def _parse_countries(self, catalog_data: dict) -> List[Country]:
        return [
            Country(name=entry["name"].strip(), flag=entry["flag"].strip())
            for entry in catalog_data["countries"]
        ]

    def _load_catalog_file_safely(self, json_file: Path) -> Dict[str, any]:
        """
        Load the catalog file with error handling.

        Args:
            json_file: Path to the JSON file to load

        Returns:
            Dictionary with success status and the countries or an error message
        """
        try:
            if not json_file.exists():
                return {
                    'success': False,
                    'error': "File not found"
                }

            if not os.access(json_file, os.R_OK):
                return {
                    'success': False,
                    'error': "Permission denied: Cannot read file"
                }

            file_size = json_file.stat().st_size
            if file_size > self.MAX_FILE_SIZE:
                return {
                    'success': False,
                    'error': f"File too large ({file_size / 1024:.1f}KB). Maximum size is {self.MAX_FILE_SIZE // 1024}KB"
                }

            catalog_data = self._load_single_file(json_file)
            if catalog_data is None:
                return {
                    'success': False,
                    'error': "Invalid JSON structure or validation failed"
                }

            return {
                'success': True,
                'countries': self._parse_countries(catalog_data)
            }

        except PermissionError:
            return {
                'success': False,
                'error': "Permission denied"
            }
        except OSError as e:
            return {
                'success': False,
                'error': f"System error: {e}"
            }

    def _use_builtin_catalog(self) -> List[Country]:
        self.countries = list(BUILTIN_COUNTRIES)
        self.fallback_catalog_active = True
        self.logger.warning(
            f"Using built-in catalog with {len(self.countries)} countries due to loading failures"
        )
        return self.get_catalog()

    def get_catalog(self) -> List[Country]:
        return list(self.countries)

    def get_country_count(self) -> int:
        return len(self.countries)

    def find_country(self, name: str) -> Optional[Country]:
        for country in self.countries:
            if country.name == name:
                return country
        return None

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered during the last load operation.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def is_fallback_catalog_active(self) -> bool:
        """
        Check if the built-in catalog replaced the catalog file.

        Returns:
            True if the built-in catalog is in use, False otherwise
        """
        return self.fallback_catalog_active

    def get_loading_summary(self) -> Dict[str, any]:
        """
        Get a summary of the loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_countries': len(self.countries),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'fallback_active': self.is_fallback_catalog_active(),
            'catalog_path': str(self.catalog_path)
        }
