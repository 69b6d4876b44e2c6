"""Settings package for the charter booking project.

`base.py` contains configuration shared across environments; `dev.py`,
`prod.py` and `test.py` extend it with environment specific overrides.
"""
