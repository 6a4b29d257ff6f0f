import importlib

import pytest

# Modules in dependency order
MODULES = [
    # Independent modules (no internal deps)
    'oraclebinds.exceptions',
    'oraclebinds.sql',

    # Type system and options
    'oraclebinds.types',
    'oraclebinds.options',

    # Bind compilation and result normalization
    'oraclebinds.binds',
    'oraclebinds.normalize',

    # Execution and connection
    'oraclebinds.executor',
    'oraclebinds.connection',
    'oraclebinds.statement',

    # Main package
    'oraclebinds',
]


@pytest.mark.parametrize('module', MODULES)
def test_module_imports(module):
    """Test each module imports without circular dependencies"""
    assert importlib.import_module(module) is not None


def test_compiler_does_not_import_driver_layers():
    """The bind compiler and normalizer never depend on execution modules"""
    for name in ('oraclebinds.binds', 'oraclebinds.normalize', 'oraclebinds.sql'):
        module = importlib.import_module(name)
        imported = {getattr(v, '__module__', None) for v in vars(module).values()}
        assert 'oraclebinds.executor' not in imported
        assert 'oraclebinds.connection' not in imported


if __name__ == '__main__':
    __import__('pytest').main([__file__])
