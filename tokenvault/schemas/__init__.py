# TokenVault API schemas
