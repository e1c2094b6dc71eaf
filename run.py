"""
Development Runner
==================
Runs the command-line demo straight from a source checkout.

Why is this file needed?
------------------------
1. It is located outside the 'src' package to act as a convenient runner.
2. It puts 'src' on 'sys.path' so that 'meshhologram' imports resolve
   without installing the package first.

Usage:
    $ python run.py --pixels 512 512 --shading continuous --plot
"""
import os
import sys

current_dir: str = os.path.dirname(os.path.abspath(__file__))
src_path: str = os.path.join(current_dir, 'src')
sys.path.insert(0, src_path)

from meshhologram.__main__ import main

if __name__ == "__main__":
    main()
