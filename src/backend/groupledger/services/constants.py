"""Constants shared by the storage services."""

# Azure Storage Device Account Key
AZURE_DEV_ACCOUNT_NAME = "devstoreaccount1"
AZURE_DEV_ACCOUNT_KEY = "Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/K1SZFPTOtr/KBHBeksoGMGw=="  # pylint: disable=line-too-long
