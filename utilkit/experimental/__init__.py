"""Sub-package reserved for alternative buffer designs; it holds no modules yet."""