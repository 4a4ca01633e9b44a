import unittest

from contest_backend.config import (
    CONSTRAINED_MAX_UPLOAD_BYTES,
    DEFAULT_MAX_UPLOAD_BYTES,
    ConfigurationError,
    Settings,
    check_startup,
)
from contest_backend.dependencies import init_backends, reset_backends
from contest_backend.db import InMemoryEntryStore
from contest_backend.files import InlineFileStore, ObjectFileStore
from contest_backend.gateway import InMemoryPaymentGateway


def settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


class SettingsTests(unittest.TestCase):
    def test_upload_limit_depends_on_deployment(self):
        self.assertEqual(
            settings(serverless=False, environment="development").max_upload_bytes,
            DEFAULT_MAX_UPLOAD_BYTES,
        )
        self.assertEqual(
            settings(serverless=True).max_upload_bytes, CONSTRAINED_MAX_UPLOAD_BYTES
        )
        self.assertEqual(
            settings(environment="production").max_upload_bytes,
            CONSTRAINED_MAX_UPLOAD_BYTES,
        )
        self.assertEqual(settings(max_upload_bytes_override=1024).max_upload_bytes, 1024)

    def test_file_storage_strategy(self):
        self.assertEqual(settings().file_storage_strategy, "inline")
        self.assertEqual(settings(s3_bucket="entries").file_storage_strategy, "object-store")
        self.assertEqual(
            settings(s3_bucket="entries", file_storage="inline").file_storage_strategy,
            "inline",
        )

    def test_cors_origins(self):
        origins = settings(
            frontend_url="https://contest.example/",
            allowed_origins="https://admin.example, http://localhost:3000",
        ).cors_origins
        self.assertEqual(
            origins,
            [
                "http://localhost:3000",
                "http://localhost:5173",
                "https://contest.example",
                "https://admin.example",
            ],
        )


class StartupCheckTests(unittest.TestCase):
    def test_missing_key_aborts(self):
        with self.assertRaises(ConfigurationError):
            check_startup(settings(stripe_secret_key=None, use_in_memory_backends=False))

    def test_missing_key_allowed_with_in_memory_backends(self):
        check_startup(settings(use_in_memory_backends=True))

    def test_live_key_outside_production_aborts(self):
        with self.assertRaises(ConfigurationError):
            check_startup(settings(stripe_secret_key="sk_live_abc"))
        check_startup(settings(stripe_secret_key="sk_live_abc", environment="production"))
        check_startup(settings(stripe_secret_key="sk_test_abc"))

    def test_only_test_keys_allowed_outside_production(self):
        for key in ("rk_live_abc", "pk_test_abc", "not-a-key"):
            with self.assertRaises(ConfigurationError):
                check_startup(settings(stripe_secret_key=key, environment="development"))
        check_startup(settings(stripe_secret_key="rk_test_abc", environment="development"))
        check_startup(settings(stripe_secret_key="rk_live_abc", environment="production"))


class InitBackendsTests(unittest.TestCase):
    def tearDown(self):
        reset_backends()

    def test_in_memory_backends(self):
        backends = init_backends(settings(use_in_memory_backends=True))
        self.assertIsInstance(backends.store, InMemoryEntryStore)
        self.assertIsInstance(backends.gateway, InMemoryPaymentGateway)
        self.assertIsInstance(backends.files, InlineFileStore)

    def test_object_store_selected_once(self):
        backends = init_backends(
            settings(use_in_memory_backends=True, file_storage="object-store")
        )
        self.assertIsInstance(backends.files, ObjectFileStore)


if __name__ == "__main__":
    unittest.main()
