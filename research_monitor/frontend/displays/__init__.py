# -*- coding: utf-8 -*-
"""Front ends for research_monitor."""
