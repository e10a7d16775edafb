# checkpoint_manager.py
"""
Checkpoint management for optimizer state snapshots
Persists Q-table, feedback history and emergency state with integrity hashes

Author: Adaptive AMM Optimizer
Date: 2024
"""

import asyncio
import time
import logging
import json
import hashlib
import shutil
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from collections import deque
from pathlib import Path
from datetime import datetime

logger = logging.getLogger(__name__)

# Constants
DEFAULT_CHECKPOINT_DIR = "checkpoints"
MAX_CHECKPOINTS = 10
CHECKPOINT_FORMAT_VERSION = "1.0.0"
METADATA_FILENAME = "checkpoint_metadata.json"
STATE_FILENAME = "optimizer_state.json"


@dataclass
class CheckpointMetadata:
    """Metadata for a checkpoint"""
    checkpoint_id: str
    version: str
    timestamp: float
    summary: Dict[str, Any] = field(default_factory=dict)
    file_hashes: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'checkpoint_id': self.checkpoint_id,
            'version': self.version,
            'timestamp': self.timestamp,
            'summary': self.summary,
            'file_hashes': self.file_hashes
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CheckpointMetadata':
        return cls(
            checkpoint_id=data['checkpoint_id'],
            version=data.get('version', CHECKPOINT_FORMAT_VERSION),
            timestamp=float(data['timestamp']),
            summary=data.get('summary', {}),
            file_hashes=data.get('file_hashes', {})
        )


class CheckpointManager:
    """Saves and restores controller snapshots as hashed JSON files"""

    def __init__(self, checkpoint_dir: str = DEFAULT_CHECKPOINT_DIR, max_checkpoints: int = MAX_CHECKPOINTS):
        self.checkpoint_dir = Path(checkpoint_dir)
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        self.max_checkpoints = max_checkpoints

        self.checkpoints: List[CheckpointMetadata] = []
        self.checkpoint_history = deque(maxlen=100)
        self._counter = 0

        self._lock = asyncio.Lock()

        self._load_checkpoint_registry()

    async def save(self, snapshot: Dict[str, Any]) -> str:
        """Write a snapshot and return its checkpoint id"""
        async with self._lock:
            try:
                checkpoint_id = self._generate_checkpoint_id()
                checkpoint_path = self.checkpoint_dir / checkpoint_id
                checkpoint_path.mkdir(parents=True, exist_ok=True)

                state_path = checkpoint_path / STATE_FILENAME
                self._save_json(snapshot, state_path)

                metadata = CheckpointMetadata(
                    checkpoint_id=checkpoint_id,
                    version=CHECKPOINT_FORMAT_VERSION,
                    timestamp=time.time(),
                    summary=self._summarize(snapshot),
                    file_hashes={STATE_FILENAME: self._calculate_file_hash(state_path)}
                )
                self._save_json(metadata.to_dict(), checkpoint_path / METADATA_FILENAME)

                self.checkpoints.append(metadata)
                self._cleanup_old_checkpoints()

                self.checkpoint_history.append({
                    'checkpoint_id': checkpoint_id,
                    'timestamp': time.time(),
                    'action': 'save'
                })

                logger.info(f"Saved checkpoint {checkpoint_id}")
                return checkpoint_id

            except OSError as e:
                logger.error(f"Failed to save checkpoint: {e}")
                raise

    async def load(self, checkpoint_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Load a snapshot, the most recent one by default.

        Returns None when no checkpoint exists or its integrity check fails.
        """
        async with self._lock:
            if checkpoint_id is None:
                if not self.checkpoints:
                    logger.warning("No checkpoint available")
                    return None
                checkpoint_id = self.checkpoints[-1].checkpoint_id

            checkpoint_path = self.checkpoint_dir / checkpoint_id
            if not checkpoint_path.exists():
                logger.error(f"Checkpoint path not found: {checkpoint_path}")
                return None

            if not self._verify_checkpoint_integrity(checkpoint_path):
                logger.error(f"Checkpoint integrity check failed: {checkpoint_id}")
                return None

            with open(checkpoint_path / STATE_FILENAME, 'r') as f:
                snapshot = json.load(f)

            self.checkpoint_history.append({
                'checkpoint_id': checkpoint_id,
                'timestamp': time.time(),
                'action': 'load'
            })

            logger.info(f"Loaded checkpoint {checkpoint_id}")
            return snapshot

    def list_checkpoints(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self.checkpoints]

    def _generate_checkpoint_id(self) -> str:
        """Generate unique checkpoint ID"""
        self._counter += 1
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        suffix = hashlib.sha256(f"{time.time()}:{self._counter}".encode()).hexdigest()[:8]
        return f"optimizer_{timestamp}_{suffix}"

    @staticmethod
    def _summarize(snapshot: Dict[str, Any]) -> Dict[str, Any]:
        policy = snapshot.get('policy', {})
        return {
            'q_table_size': len(policy.get('q_table', {})),
            'history_size': len(snapshot.get('history', [])),
            'emergency_state': snapshot.get('emergency', {}).get('state')
        }

    @staticmethod
    def _save_json(data: Dict[str, Any], path: Path) -> None:
        with open(path, 'w') as f:
            json.dump(data, f, indent=2, default=str)

    @staticmethod
    def _calculate_file_hash(file_path: Path) -> str:
        """Calculate file hash for integrity check"""
        digest = hashlib.sha256()

        with open(file_path, 'rb') as f:
            for chunk in iter(lambda: f.read(4096), b""):
                digest.update(chunk)

        return digest.hexdigest()

    def _load_metadata(self, checkpoint_path: Path) -> Optional[CheckpointMetadata]:
        metadata_path = checkpoint_path / METADATA_FILENAME
        if not metadata_path.exists():
            return None

        try:
            with open(metadata_path, 'r') as f:
                return CheckpointMetadata.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to load metadata: {e}")
            return None

    def _verify_checkpoint_integrity(self, checkpoint_path: Path) -> bool:
        metadata = self._load_metadata(checkpoint_path)
        if not metadata:
            return False

        for filename, expected_hash in metadata.file_hashes.items():
            file_path = checkpoint_path / filename

            if not file_path.exists():
                logger.error(f"Missing checkpoint file: {filename}")
                return False

            if self._calculate_file_hash(file_path) != expected_hash:
                logger.error(f"Hash mismatch for {filename}")
                return False

        return True

    def _cleanup_old_checkpoints(self) -> None:
        """Remove old checkpoints beyond limit"""
        if len(self.checkpoints) <= self.max_checkpoints:
            return

        to_remove = self.checkpoints[:len(self.checkpoints) - self.max_checkpoints]
        for metadata in to_remove:
            checkpoint_path = self.checkpoint_dir / metadata.checkpoint_id
            if checkpoint_path.exists():
                shutil.rmtree(checkpoint_path)
            self.checkpoints.remove(metadata)
            logger.info(f"Removed old checkpoint: {metadata.checkpoint_id}")

    def _load_checkpoint_registry(self) -> None:
        """Load existing checkpoints from disk"""
        for checkpoint_path in self.checkpoint_dir.iterdir():
            if checkpoint_path.is_dir():
                metadata = self._load_metadata(checkpoint_path)
                if metadata:
                    self.checkpoints.append(metadata)

        self.checkpoints.sort(key=lambda m: m.timestamp)
        if self.checkpoints:
            logger.info(f"Loaded {len(self.checkpoints)} checkpoints")
