# Package: keymatic
# Reconciles local accounts and SSH authorized_keys against a desired roster.

VERSION = "1.0.0"
