from dataclasses import dataclass

from dbwrap.result import FetchMode
from dbwrap.strategy import get_available_dialects, get_strategy_class
from dbwrap.strategy import is_supported_dialect

from libb import ConfigOptions, scriptname

__all__ = ['DatabaseOptions']


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    supported driver names: `mysql`, `postgresql`, `sqlite`

    Unset `username`/`password`/`port` fall back to the driver defaults.

    Session options:
    - charset: MySQL connection character set (default: utf8mb4)
    - strict: Add STRICT_ALL_TABLES to the MySQL sql_mode (default: True)
    - local_infile: Use LOAD DATA LOCAL INFILE for bulk loads (default: True)
    - staging_dir: Directory for bulk-load staging files (default: /dev/shm or tmp)
    - fetch_mode: Default row shape for fetch helpers (default: ASSOCIATIVE)
    """
    drivername: str = 'mysql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = None
    timeout: int = 0
    appname: str = None
    charset: str = 'utf8mb4'
    strict: bool = True
    local_infile: bool = True
    staging_dir: str = None
    fetch_mode: FetchMode = FetchMode.ASSOCIATIVE

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        self.appname = self.appname or scriptname() or 'python_console'
        self.fetch_mode = FetchMode.coerce(self.fetch_mode)
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)
