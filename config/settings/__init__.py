"""Settings package for the Turfslot project.

`base.py` holds configuration shared by every environment; `dev.py`,
`prod.py` and `test.py` override it.
"""
