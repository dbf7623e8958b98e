import pytest


@pytest.fixture(autouse=True)
def _module_setup_for_class_tests(request):
    """Run a module's ``setup_function`` before class-based tests too.

    pytest only calls ``setup_function`` for module-level test functions,
    but the test modules rely on it to reset shared state for their
    class-based tests as well.
    """
    if request.cls is not None:
        setup = getattr(request.module, "setup_function", None)
        if setup is not None:
            setup()
    yield
