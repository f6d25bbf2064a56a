"""Ghostnote Vault Meta information.
   Ghostnote Vault keeps the notes of a local note-taking application
   encrypted at rest under a password-derived key hierarchy.
"""
__title__ = 'ghostnote_vault'
__description__ = (
   'Ghostnote Vault keeps local notes encrypted at rest under a '
   'password-derived key hierarchy.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 Ghostnote Developers'
__author__ = 'Ghostnote Developers'
__author_email__ = 'dev@ghostnote.app'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/ghostnote/ghostnote-vault'
