#! /usr/bin/env python

'''
Windows Spotlight lock screen pictures saver.

Windows caches the Spotlight lock screen pictures, without any extension, in
the ContentDeliveryManager package directory. This looks for the ones which
are landscape wallpapers, copies them in a target directory with a proper
extension and, on request, archives the pictures older than a year in per year
subdirectories of the target directory.
'''

import argparse
import collections
import datetime
import logging
import pathlib
import shutil
import sys
from typing import List, Optional

from PIL import Image


__version__ = '1.0.0'

PACKAGE_PREFIX = 'Microsoft.Windows.ContentDeliveryManager_'
ASSETS_SUBDIR = pathlib.Path('LocalState', 'Assets')
WIDTH_MIN = 800
HEIGHT_MIN = 600
ARCHIVE_AGE = datetime.timedelta(days=365)

# Pillow may know several extensions for a format, always use the same one
FORMAT_EXTS = {
    'BMP': 'bmp',
    'GIF': 'gif',
    'JPEG': 'jpg',
    'MPO': 'jpg',
    'PNG': 'png',
    'TIFF': 'tif',
    'WEBP': 'webp',
}


class SpotlightNotFound(FileNotFoundError):
    '''Spotlight pictures directory lookup error'''


def format_ext(img_format: str) -> str:
    '''Returns the file extension to use for the Pillow format "img_format"'''
    return FORMAT_EXTS.get(img_format, img_format.lower())


def find_spotlight_dir(
        packages_dir: Optional[pathlib.Path] = None) -> pathlib.Path:
    '''
    Look for the ContentDeliveryManager package in "packages_dir" (the user
    local packages directory by default) and return its assets directory.
    If several packages match, the first one listed by the filesystem wins.
    Raises SpotlightNotFound if the packages directory cannot be listed or if
    no package matches.
    '''
    if packages_dir is None:
        try:
            packages_dir = pathlib.Path.home().joinpath(
                'AppData', 'Local', 'Packages')
        except (KeyError, RuntimeError) as exc:
            raise SpotlightNotFound(f'Can not find home dir: {exc}') from exc
    try:
        entries = list(packages_dir.iterdir())
    except OSError as exc:
        raise SpotlightNotFound(
            f'Can not list packages dir "{packages_dir}": {exc}') from exc
    for path in entries:
        if not path.is_dir():
            continue
        if path.name.startswith(PACKAGE_PREFIX):
            return path.joinpath(ASSETS_SUBDIR)
    raise SpotlightNotFound('Can not find Spotlight image dir')


class Config(collections.namedtuple('Config',
                                    ['target', 'verbose', 'archive'])):
    '''
    Run configuration: "target" is the directory to save the pictures to,
    "verbose" the verbosity level and "archive" whether to archive the old
    pictures once saved.
    '''
    __slots__ = ()

    class Error(Exception):
        '''Configuration specific error'''

    def __str__(self):
        return (f'[target = {self.target}, verbose = {self.verbose}, '
                f'archive = {self.archive}]')

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> 'Config':
        '''
        Build the configuration from the parsed command line arguments.
        Raises Config.Error if the target directory cannot be found.
        '''
        if args.dir is not None:
            target = pathlib.Path(args.dir)
        else:
            try:
                home = pathlib.Path.home()
            except (KeyError, RuntimeError) as exc:
                raise cls.Error(
                    f'Can not find home dir: {exc}') from exc
            picture_dir = home.joinpath('Pictures')
            if not picture_dir.is_dir():
                raise cls.Error(f"Can not find dir '{picture_dir}'")
            target = picture_dir.joinpath('Spotlight')

        if not target.is_dir():
            raise cls.Error(f"target dir '{target}' does not exist")
        return cls(target, args.verbose or 0, bool(args.archive))


class SpotlightSaver:
    '''
    Saves the Spotlight pictures to the configured target directory, and
    archives the old ones
    '''
    def __init__(self, config: Config,
                 source: Optional[pathlib.Path] = None):
        self.config = config
        self.source = source
        self.logger = logging.getLogger(self.__class__.__name__)
        loglevel = logging.WARNING
        if config.verbose:
            loglevel = logging.INFO
            if config.verbose >= 2:
                loglevel = logging.DEBUG
        self.logger.setLevel(loglevel)
        self.logger.debug('Configuration: %s', config)

    def run(self) -> None:
        '''Save the pictures, then archive the old ones if requested'''
        self.save_images()
        if self.config.archive:
            self.archive_images()

    def save_images(self) -> int:
        '''
        Save every picture of the Spotlight directory matching the size
        requirements. Returns the number of pictures saved.
        Raises SpotlightNotFound if the Spotlight directory cannot be found,
        and OSError if it cannot be listed.
        '''
        if self.source is None:
            self.source = find_spotlight_dir()
        self.logger.info('Scan spotlight dir: %s', self.source)

        count = 0
        for path in self.source.iterdir():
            if not path.is_file():
                continue
            if self.save_image(path):
                count += 1

        self.logger.info('%d images saved!', count)
        return count

    def save_image(self, path: pathlib.Path) -> bool:
        '''
        Copy the file "path" to the target directory if it is a landscape
        picture large enough, named after the file and the detected picture
        format. Returns True if the file was copied.
        '''
        self.logger.info('Scan file: %s...', path)
        try:
            with Image.open(path, mode='r', formats=None) as img:
                img.load()
                img_format = img.format
                width, height = img.size
        except Exception as exc:
            self.logger.debug('  not a picture: %s', exc)
            return False
        if not img_format:
            return False

        if width < height or width < WIDTH_MIN or height < HEIGHT_MIN:
            self.logger.debug('  %dx%d, skipped', width, height)
            return False

        target_file = self.config.target.joinpath(
            f'{path.name}.{format_ext(img_format)}')
        if target_file.exists():
            self.logger.debug('  %s already exists', target_file)
            return False

        self.logger.info('Saving image: %s ...', target_file)
        try:
            shutil.copy(path, target_file)
        except OSError as exc:
            self.logger.warning('Failed to save %s: %s', target_file, exc)
            try:
                target_file.unlink(missing_ok=True)
            except OSError as unlink_exc:
                self.logger.warning('Failed to remove %s: %s', target_file,
                                    unlink_exc)
            return False
        return True

    @staticmethod
    def file_timestamp(path: pathlib.Path) -> Optional[float]:
        '''
        Returns the modification time of "path", or None if it cannot be
        read
        '''
        try:
            return path.stat().st_mtime
        except OSError:
            return None

    def archive_images(self) -> List[pathlib.Path]:
        '''
        Move the pictures of the target directory older than a year to a
        subdirectory named after their year. Subdirectories are not scanned.
        Returns the archived files new paths.
        Any OSError aborts the archiving. An original file is only removed
        once copied.
        '''
        target = self.config.target
        self.logger.info('Archive images in dir: %s', target)
        timeline = datetime.date.today() - ARCHIVE_AGE

        archived = []
        for path in list(target.iterdir()):
            if not path.is_file():
                continue
            timestamp = self.file_timestamp(path)
            if timestamp is None:
                continue
            filedate = datetime.date.fromtimestamp(timestamp)
            if filedate >= timeline:
                continue

            self.logger.info('archive file: %s ...', path)
            year_dir = target.joinpath(f'{filedate.year:04d}')
            year_dir.mkdir(exist_ok=True)
            bak_file = year_dir.joinpath(path.name)
            shutil.copy2(path, bak_file)
            path.unlink()
            archived.append(bak_file)
        self.logger.info('%d images archived', len(archived))
        return archived


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    '''Parse the command line arguments'''
    parser = argparse.ArgumentParser(
        prog='spotlight',
        description='Save Spotlight images in Windows 10.')
    parser.add_argument('dir', metavar='DIR', nargs='?',
                        help='target image dir, default dir is '
                        "'${HOME}/Pictures/Spotlight/'")
    parser.add_argument('-v', '--verbose', action='count',
                        help='use verbose output (can be repeated twice)')
    parser.add_argument('-a', '--archive', action='store_true',
                        help='archive images by year')
    parser.add_argument('--version', action='version',
                        version=f'%(prog)s {__version__}')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    '''Command line entry point, returns the exit code'''
    args = parse_args(argv)
    logging.basicConfig(format='%(message)s', stream=sys.stdout)
    try:
        config = Config.from_args(args)
    except Config.Error as exc:
        print(f'Error when parsing arguments: {exc}', file=sys.stderr)
        return 1

    try:
        SpotlightSaver(config).run()
    except OSError as exc:
        print(f'Error when saving images: {exc}', file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
