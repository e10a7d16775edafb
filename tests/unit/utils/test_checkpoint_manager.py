"""
Unit tests for optimizer state checkpointing.

Tests cover:
- Save and load of JSON snapshots
- Integrity verification
- Retention of the newest checkpoints
- Registry reload from disk
"""

import json

import pytest

from adaptive_amm.utils.checkpoint_manager import CheckpointManager, STATE_FILENAME


def make_snapshot(states=1):
    return {
        'policy': {
            'q_table': {f"0.{i}0,0.50,0.50,0.50,0.50": {'0': 0.1, '1': 0.2} for i in range(states)},
            'learning_rate': 0.01,
            'update_count': states
        },
        'history': [],
        'emergency': {'state': 'NORMAL', 'epoch': 0, 'entered_at': None, 'transitions': []}
    }


class TestCheckpointManager:
    """Test cases for CheckpointManager."""

    @pytest.mark.asyncio
    async def test_save_and_load_latest(self, tmp_path):
        """The most recent snapshot is returned by default."""
        manager = CheckpointManager(str(tmp_path))

        await manager.save(make_snapshot(1))
        await manager.save(make_snapshot(3))
        loaded = await manager.load()

        assert len(loaded['policy']['q_table']) == 3
        assert len(manager.list_checkpoints()) == 2

    @pytest.mark.asyncio
    async def test_load_specific_checkpoint(self, tmp_path):
        """A checkpoint can be loaded by id."""
        manager = CheckpointManager(str(tmp_path))

        first = await manager.save(make_snapshot(1))
        await manager.save(make_snapshot(2))

        loaded = await manager.load(first)

        assert len(loaded['policy']['q_table']) == 1

    @pytest.mark.asyncio
    async def test_metadata_summary(self, tmp_path):
        """Metadata summarizes the snapshot."""
        manager = CheckpointManager(str(tmp_path))

        await manager.save(make_snapshot(2))
        summary = manager.list_checkpoints()[0]['summary']

        assert summary == {'q_table_size': 2, 'history_size': 0, 'emergency_state': 'NORMAL'}

    @pytest.mark.asyncio
    async def test_tampered_state_rejected(self, tmp_path):
        """A modified state file fails the hash check."""
        manager = CheckpointManager(str(tmp_path))
        checkpoint_id = await manager.save(make_snapshot(1))

        state_path = tmp_path / checkpoint_id / STATE_FILENAME
        state_path.write_text(json.dumps({'policy': {}}))

        assert await manager.load(checkpoint_id) is None

    @pytest.mark.asyncio
    async def test_load_without_checkpoints(self, tmp_path):
        """Nothing saved yet."""
        manager = CheckpointManager(str(tmp_path))

        assert await manager.load() is None
        assert await manager.load('missing') is None

    @pytest.mark.asyncio
    async def test_old_checkpoints_removed(self, tmp_path):
        """Only the newest checkpoints are retained."""
        manager = CheckpointManager(str(tmp_path), max_checkpoints=2)

        ids = [await manager.save(make_snapshot(i + 1)) for i in range(4)]

        remaining = [c['checkpoint_id'] for c in manager.list_checkpoints()]
        assert remaining == ids[2:]
        assert not (tmp_path / ids[0]).exists()

    @pytest.mark.asyncio
    async def test_registry_reloaded(self, tmp_path):
        """A new manager finds checkpoints written earlier."""
        await CheckpointManager(str(tmp_path)).save(make_snapshot(2))

        manager = CheckpointManager(str(tmp_path))
        loaded = await manager.load()

        assert len(manager.list_checkpoints()) == 1
        assert len(loaded['policy']['q_table']) == 2
