"""
Test Suite for the API Documentation Generator
===============================================

Test Structure:
    - test_context.py: RouteInfo / AnalysisContext
    - test_annotations.py, test_schemas.py: schema resolution engine
    - test_registry.py, test_pipeline.py: registry ordering and merge rules
    - test_exception_analyzer.py, test_extractors.py: core analyzers
    - test_plugins.py: bundled plugins
    - test_generator.py: end-to-end generation, config and route tables
"""
