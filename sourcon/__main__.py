# -*- coding: utf-8 -*-
# Copyright (C) 2013-2017 Oliver Ainsworth

from .shell import _main


if __name__ == "__main__":
    _main()
