"""Test package for the device diagnostics suite.

Core modules are tested with an injected fake clock; the pygame shell is
exercised headlessly through SDL's dummy video driver so no window opens.
Run ``pytest`` from the project root.
"""
