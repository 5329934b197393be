"""Test package for the CPT engine.

Core tests drive the engines with a fake clock and the real timer queue; the
UI smoke tests run the pygame host headlessly with SDL's dummy drivers. To
run these tests, execute ``pytest`` from the project root.
"""
