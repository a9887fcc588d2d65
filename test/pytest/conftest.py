import os

# Settings viene istanziato all'import: servono le variabili prima dei test
os.environ.setdefault("REPORT_SOURCE_URL", "http://reports.test")
os.environ.setdefault("STATISTICS_SOURCE_URL", "http://statistics.test")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("JWT_PUBLIC_KEY", "unit-test-secret-key-with-enough-bytes-for-hs256")
