# backend/score_logger.py
"""
Happiness score history logging.

Tracks:
- Every freshly computed score with its full breakdown
- Level changes (e.g. Beginner -> Intermediate)

Events go to a JSONL file (one JSON object per line) for later analysis;
a standard debug log records what was written. Enabled with SCORE_LOG_ENABLED=1
or by constructing ScoreLogger(enabled=True).
"""
import os
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from pathlib import Path

LOG_DIR = os.path.join(os.path.dirname(__file__), '..', 'data', 'logs')

_ENABLED = os.getenv('SCORE_LOG_ENABLED', '').lower() in ('1', 'true', 'yes')


def _debug_logger(log_dir: str) -> logging.Logger:
    logger = logging.getLogger('score_logger')
    logger.setLevel(logging.INFO)
    if not logger.handlers:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(
            os.path.join(log_dir, f'score_debug_{datetime.now().strftime("%Y%m%d")}.log'),
            encoding='utf-8'
        )
        formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
    return logger


class ScoreLogger:
    """Logs score events for analysis."""

    def __init__(self, log_dir: Optional[str] = None, enabled: Optional[bool] = None):
        self.log_dir = log_dir or LOG_DIR
        self.enabled = _ENABLED if enabled is None else enabled
        self.log_file = os.path.join(self.log_dir, f'scores_{datetime.now().strftime("%Y%m%d")}.jsonl')
        self._logger: Optional[logging.Logger] = None

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = _debug_logger(self.log_dir)
        return self._logger

    def _append(self, event: Dict[str, Any]):
        Path(self.log_dir).mkdir(parents=True, exist_ok=True)
        with open(self.log_file, 'a', encoding='utf-8') as f:
            f.write(json.dumps(event) + '\n')

    def log_score_computed(self, user_id: str, result: Dict[str, Any], markers: Optional[Dict[str, Any]] = None):
        """Log a freshly computed (not cached) score.

        Args:
            user_id: Owner of the records
            result: Output of compute_happiness (score, level, breakdown)
            markers: Record store last-modified markers the score was computed from
        """
        if not self.enabled:
            return
        try:
            event = {
                'event_type': 'score_computed',
                'timestamp': datetime.now().isoformat(),
                'user_id': user_id,
                'score': result.get('score'),
                'level': result.get('level'),
                'breakdown': result.get('breakdown', {}),
                'markers': markers or {},
            }
            self._append(event)
            self.logger.info(f"Logged score for {user_id}: {result.get('score')} ({result.get('level')})")
        except Exception as e:
            self.logger.error(f"Failed to log score computation: {e}", exc_info=True)

    def log_level_change(self, user_id: str, previous_level: str, new_level: str, score: int):
        """Log when a user's level label changes between two computations."""
        if not self.enabled:
            return
        try:
            event = {
                'event_type': 'level_changed',
                'timestamp': datetime.now().isoformat(),
                'user_id': user_id,
                'previous_level': previous_level,
                'new_level': new_level,
                'score': score,
            }
            self._append(event)
            self.logger.info(f"Logged level change for {user_id}: {previous_level} -> {new_level}")
        except Exception as e:
            self.logger.error(f"Failed to log level change: {e}", exc_info=True)

    def read_events(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Read today's logged events, optionally for one user."""
        if not os.path.exists(self.log_file):
            return []
        events = []
        with open(self.log_file, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                event = json.loads(line)
                if user_id is None or event.get('user_id') == user_id:
                    events.append(event)
        return events
