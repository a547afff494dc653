"""Work-unit discovery test suite.

- test_units.py / test_serialization.py: data model and payload encoding
- test_detector.py / test_assembler.py: change detection and assembly
- test_watermark_store.py / test_update_provider.py / test_catalog.py: collaborators
- test_config_loader.py / test_env.py / test_observability.py: configuration and logging
- test_runner.py / test_cli.py: driver and CLI
"""
