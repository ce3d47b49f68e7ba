# -*- coding: utf-8 -*-
"""Define project metadata
"""

__title__ = 'hexstow'
__summary__ = 'A content-addressable file store with adaptive hex sharding.'
__url__ = 'https://github.com/jakeogh/hexstow'

__version__ = '0.1.0'

__install_requires__ = ['attrs', 'click', 'humanize']
__tests_require__ = ['pytest']

__author__ = 'Justin Keogh'
__email__ = 'github.com@v6y.net'

__license__ = 'MIT License'
