"""batch-foundry test suite.

- unit/test_chunking.py: transaction partitioning
- unit/test_sequential_runner.py / unit/test_concurrent_runner.py: the runners
- unit/test_batch_resilience.py: retry limits and backoff
- unit/test_batch_options.py: options, env expansion and YAML loading
- unit/test_batch_logging.py: logging and run metrics
- unit/test_batch_cli.py: python -m batchjob
"""
