# Mô-đun kiểm tra dữ liệu
# Validates dataset sections of the YAML config (cerberus schema)
# and the presence of the columns a run depends on.

from typing import Dict, Any, List

import pandas as pd
from cerberus import Validator

from .logging_config import get_logger

logger = get_logger(__name__)

_STRING_LIST = {'type': 'list', 'schema': {'type': 'string'}}

_FEATURE_SCHEMA = {
    'kind': {'type': 'string', 'required': True,
             'allowed': ['date_parts', 'time_delta', 'threshold_flag']},
    'name': {'type': 'string'},
    'source': {'type': 'string'},
    'parts': _STRING_LIST,
    'prefix': {'type': 'string'},
    'start': {'type': 'string'},
    'end': {'type': 'string'},
    'unit': {'type': 'string', 'allowed': ['minutes', 'hours', 'days']},
    'op': {'type': 'string', 'allowed': ['lt', 'le', 'gt', 'ge', 'eq', 'ne']},
    'threshold': {'type': 'number'},
    'labels': {'type': 'list', 'minlength': 2, 'maxlength': 2},
}

DATASET_SCHEMA = {
    'description': {'type': 'string'},
    'rename': {'type': 'dict', 'keysrules': {'type': 'string'}, 'valuesrules': {'type': 'string'}},
    'drop': _STRING_LIST,
    'dedup': {
        'type': 'dict',
        'schema': {
            'key': {'type': 'list', 'nullable': True, 'schema': {'type': 'string'}},
            'order_by': {'type': 'string'},
        },
    },
    'blank': {
        'type': 'dict',
        'schema': {
            'fields': {'type': 'list', 'nullable': True, 'schema': {'type': 'string'}},
            'tokens': _STRING_LIST,
        },
    },
    'categorical': {
        'type': 'list',
        'schema': {
            'type': 'dict',
            'schema': {
                'field': {'type': 'string', 'required': True},
                'mapping': {'type': 'dict', 'valuesrules': {'type': 'string'}},
                'prefixes': {'type': 'dict', 'valuesrules': {'type': 'string'}},
                'known': _STRING_LIST,
                'strip_chars': {'type': 'string'},
            },
        },
    },
    'patches': {
        'type': 'list',
        'schema': {
            'type': 'dict',
            'schema': {
                'match': {'type': 'dict', 'required': True, 'empty': False},
                'set': {'type': 'dict', 'required': True, 'empty': False},
            },
        },
    },
    'backfill': {
        'type': 'list',
        'schema': {
            'type': 'dict',
            'schema': {
                'field': {'type': 'string', 'required': True},
                'join_key': {'type': 'list', 'required': True, 'minlength': 1, 'schema': {'type': 'string'}},
                'policy': {'type': 'string', 'allowed': ['first', 'most_frequent', 'error']},
            },
        },
    },
    'required': _STRING_LIST,
    'coerce': {
        'type': 'dict',
        'valuesrules': {
            'type': 'dict',
            'schema': {
                'type': {'type': 'string', 'required': True,
                         'allowed': ['integer', 'decimal', 'date', 'string']},
                'format': {'type': 'string'},
                'scale': {'type': 'integer', 'min': 0},
                'strip_chars': {'type': 'string'},
            },
        },
    },
    'essential': _STRING_LIST,
    'numeric_fields': _STRING_LIST,
    'features': {'type': 'list', 'schema': {'type': 'dict', 'schema': _FEATURE_SCHEMA}},
    'views': _STRING_LIST,
}


class DataValidator:
    # Bộ xác thực cấu hình dataset và các cột bắt buộc

    def __init__(self):
        self.validator = Validator(DATASET_SCHEMA)

    def validate_dataset_config(self, dataset_config: Dict[str, Any]) -> Dict[str, Any]:
        is_valid = self.validator.validate(dataset_config or {})
        result = {
            'is_valid': is_valid,
            'errors': dict(self.validator.errors),
        }
        if not is_valid:
            logger.warning(f"Dataset configuration invalid: {result['errors']}")
        return result

    def validate_data_completeness(self, df: pd.DataFrame, required_columns: List[str]) -> Dict[str, Any]:
        # Kiểm tra đủ cột bắt buộc; giá trị null không phải lỗi ở bước này
        missing_columns = [col for col in required_columns if col not in df.columns]
        errors = []
        if missing_columns:
            errors.append(f"Missing required columns: {missing_columns}")

        return {
            'is_valid': len(errors) == 0,
            'missing_columns': missing_columns,
            'errors': errors,
            'error_count': len(errors)
        }
