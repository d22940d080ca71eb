import sys
from pathlib import Path

import pytest
import torch

sys.path.insert(0, str(Path(__file__).parent.parent))


def make_block():
    torch.manual_seed(0)
    net = torch.nn.Sequential(torch.nn.Linear(4, 3), torch.nn.BatchNorm1d(3))
    return torch.jit.script(net)


def save_archive(path, extra_files=None):
    torch.jit.save(make_block(), str(path), _extra_files=extra_files or {})
    return path


@pytest.fixture
def model_dir(tmp_path):
    """A model directory holding model.pt and a few auxiliary artifacts."""
    directory = tmp_path / "resnet"
    directory.mkdir()
    save_archive(directory / "model.pt", {"synset.txt": "cat\ndog\n"})
    (directory / "synset.txt").write_text("cat\ndog\n", encoding="utf-8")
    (directory / "sub").mkdir()
    (directory / "sub" / "notes.md").write_text("notes", encoding="utf-8")
    return directory
