# kiểm tra chất lượng dữ liệu sau khi làm sạch
# completeness (độ đầy đủ)
# uniqueness (tính duy nhất theo dedup key)
# validity (trường số là số hoặc null, không bao giờ là chuỗi rỗng)
# Tính overall_score và đánh dấu PASS/FAIL
import numbers
from typing import Dict, Any, List, Optional

import pandas as pd

from ..ingestion.staging import data_columns
from ..utils.logging_config import PipelineLogger, get_logger

logger = get_logger(__name__)


class DataQualityChecker:
    def __init__(self, pass_threshold: float = 0.8):
        self.pass_threshold = pass_threshold
        self.pipeline_logger = PipelineLogger(__name__)

    # Hàm chính, nhận DataFrame và trả về report dạng dict
    def check_data_quality(
        self,
        df: pd.DataFrame,
        key: Optional[List[str]] = None,
        numeric_fields: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        logger.info("Starting data quality checks")

        quality_report = {
            'total_rows': len(df),
            'total_columns': len(data_columns(df)),
            'checks': {}
        }

        quality_report['checks']['completeness'] = self._check_completeness(df)
        quality_report['checks']['uniqueness'] = self._check_uniqueness(df, key)
        quality_report['checks']['validity'] = self._check_validity(df, numeric_fields or [])

        quality_report['overall_score'] = self._calculate_overall_score(quality_report['checks'])
        quality_report['status'] = 'PASS' if quality_report['overall_score'] >= self.pass_threshold else 'FAIL'

        for check_name, check in quality_report['checks'].items():
            for issue in check['issues']:
                self.pipeline_logger.log_data_quality_issue(check_name, issue['message'], issue['affected_rows'])

        logger.info(f"Data quality check completed. Overall score: {quality_report['overall_score']:.3f}")
        return quality_report

    # Tính tỉ lệ không bị null trên toàn bảng và từng cột
    def _check_completeness(self, df: pd.DataFrame) -> Dict[str, Any]:
        report = {'score': 1.0, 'issues': [], 'column_details': {}}
        columns = data_columns(df)
        if df.empty or not columns:
            return report

        frame = df[columns]
        report['score'] = float(1 - frame.isna().sum().sum() / frame.size)

        for column in columns:
            missing_count = int(frame[column].isna().sum())
            missing_rate = missing_count / len(frame)
            report['column_details'][column] = {
                'missing_count': missing_count,
                'missing_rate': missing_rate,
            }
            if missing_rate > 0.1:  # More than 10% missing
                report['issues'].append({
                    'message': f"Column '{column}' has {missing_rate:.1%} missing values",
                    'affected_rows': missing_count,
                })
        return report

    def _check_uniqueness(self, df: pd.DataFrame, key: Optional[List[str]]) -> Dict[str, Any]:
        key = key or data_columns(df)
        report = {'score': 1.0, 'issues': [], 'key': key, 'duplicate_rows': 0}
        if df.empty or not key:
            return report

        duplicate_rows = int(df.duplicated(subset=key).sum())
        report['duplicate_rows'] = duplicate_rows
        report['score'] = 1 - duplicate_rows / len(df)
        if duplicate_rows:
            report['issues'].append({
                'message': f"{duplicate_rows} rows share a dedup key value",
                'affected_rows': duplicate_rows,
            })
        return report

    # trường số: mỗi giá trị phải là số hợp lệ hoặc null
    def _check_validity(self, df: pd.DataFrame, numeric_fields: List[str]) -> Dict[str, Any]:
        report = {'score': 1.0, 'issues': [], 'column_details': {}}
        checked = [col for col in numeric_fields if col in df.columns]
        if not checked:
            return report

        invalid_columns = 0
        for column in checked:
            invalid = int(sum(
                1 for value in df[column]
                if not pd.isna(value) and (isinstance(value, bool) or not isinstance(value, numbers.Number))
            ))
            report['column_details'][column] = {'invalid_count': invalid}
            if invalid:
                invalid_columns += 1
                report['issues'].append({
                    'message': f"Column '{column}' has {invalid} non-numeric values",
                    'affected_rows': invalid,
                })

        report['score'] = 1 - invalid_columns / len(checked)
        return report

    # Gán trọng số cho từng loại check
    def _calculate_overall_score(self, checks: Dict[str, Any]) -> float:
        weights = {
            'completeness': 0.3,
            'uniqueness': 0.35,
            'validity': 0.35,
        }

        overall_score = 0.0
        for check_name, weight in weights.items():
            if check_name in checks:
                overall_score += checks[check_name]['score'] * weight
        return float(overall_score)
