import pytest
from grunnur import API, Context, Queue


def pytest_addoption(parser):
    parser.addoption(
        "--api",
        dest="api",
        action="store",
        help="GPGPU API to run the tests with (e.g. opencl or cuda); all available if not given",
        default=None,
    )
    parser.addoption(
        "--platform",
        dest="platform",
        action="store",
        help="Only use platforms whose name contains this string",
        default=None,
    )
    parser.addoption(
        "--device",
        dest="device",
        action="store",
        help="Only use devices whose name contains this string",
        default=None,
    )


def find_devices(config):
    """
    Returns a list of ``(id, device)`` pairs for every device
    selected by the command line options.
    """
    api_shortcut = config.option.api
    platform_mask = config.option.platform
    device_mask = config.option.device

    devices = []
    for api in API.all_available():
        if api_shortcut is not None and api.id.shortcut != api_shortcut:
            continue
        for pnum, platform in enumerate(api.platforms):
            if platform_mask is not None and platform_mask not in platform.name:
                continue
            for dnum, device in enumerate(platform.devices):
                if device_mask is not None and device_mask not in device.name:
                    continue
                devices.append((f"{api.id.shortcut}:{pnum},{dnum}", device))
    return devices


def pytest_generate_tests(metafunc):
    if "context" in metafunc.fixturenames or "some_context" in metafunc.fixturenames:
        devices = find_devices(metafunc.config)

    if "context" in metafunc.fixturenames:
        metafunc.parametrize(
            "context",
            [device for _id, device in devices],
            ids=[id_ for id_, _device in devices],
            indirect=True,
        )

    if "some_context" in metafunc.fixturenames:
        # Tests that do not depend on the device only need to run once
        metafunc.parametrize(
            "some_context",
            [device for _id, device in devices[:1]],
            ids=[id_ for id_, _device in devices[:1]],
            indirect=True,
        )


@pytest.fixture
def context(request):
    return Context.from_devices([request.param])


@pytest.fixture
def some_context(request):
    return Context.from_devices([request.param])


@pytest.fixture
def queue(context):
    return Queue(context.device)


@pytest.fixture
def some_queue(some_context):
    return Queue(some_context.device)
