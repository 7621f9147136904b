import os
import tempfile

# 必须在导入 lm_core 之前设置：settings 与 logger 在导入时初始化
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="lm_core_logs_")
os.environ.pop("LM_PROVIDER_CONNECTION_STRING", None)

import pytest  # noqa: E402

from lm_core.providers.registry import clear_local_provider  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_local_provider():
    clear_local_provider()
    yield
    clear_local_provider()
