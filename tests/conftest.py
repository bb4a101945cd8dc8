'''Shared fixtures: picture files and directories laid out like Windows'''

import sys
from pathlib import Path

import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import spotlight


@pytest.fixture
def picture():
    '''Returns a function writing a picture of "size" and "img_format"'''
    def write(path, size, img_format='JPEG'):
        Image.new('RGB', size, color=(30, 90, 160)).save(path,
                                                         format=img_format)
        return path
    return write


@pytest.fixture
def source(tmp_path):
    '''Spotlight assets directory'''
    path = tmp_path / 'Assets'
    path.mkdir()
    return path


@pytest.fixture
def target(tmp_path):
    '''Target directory of the saved pictures'''
    path = tmp_path / 'Spotlight'
    path.mkdir()
    return path


@pytest.fixture
def saver(source, target):
    config = spotlight.Config(target, 0, False)
    return spotlight.SpotlightSaver(config, source=source)
