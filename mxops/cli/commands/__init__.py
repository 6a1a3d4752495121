# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0
