from pipe2kube import __version__

LOGO = rf"""
        _            ___  _          _
  _ __ (_)_ __   ___|_  )| | ___  _| |__   ___
 | '_ \| | '_ \ / -_)/ / | |/ / || | '_ \ / -_)
 | .__/|_| .__/ \___/___||_|\_\\_,_|_.__/ \___|
 |_|     |_|                          v{__version__}
"""

DEFAULT_CONFIG_NAME = "pipe2kube.yml"
GITLAB_CI_NAME = ".gitlab-ci.yml"
